from pydantic import BaseModel


class RoomDetailsResponse(BaseModel):
    online_users_count: int
    connections_count: int
    session_expiration: int

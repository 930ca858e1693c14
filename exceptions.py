class ChatError(Exception):
    """Base error for join failures that are reported back to the client."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidUsernameError(ChatError):
    def __init__(self, username=None):
        self.username = username
        super().__init__(
            "Invalid username! "
            "Use only alphanumeric characters, dashes, underscores or periods."
        )


class UsernameTakenError(ChatError):
    def __init__(self, username: str):
        self.username = username
        super().__init__("Username taken!")

class BotmError(Exception):
    """Base class for failures of a single user's generation attempt."""

    def __init__(self, message):
        self.message = message
        super().__init__(self.message)


class UserNotFound(BotmError):
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__("No stored credentials for user {}".format(user_id))


class RefreshFailed(BotmError):
    def __init__(self, user_id, cause):
        self.user_id = user_id
        self.cause = cause
        super().__init__(f"Failed to exchange refresh token for user {user_id}: {cause}")


class ProviderRequestFailed(BotmError):
    def __init__(self, action, status_code=None, detail=None):
        self.action = action
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            message = f"Spotify request '{action}' failed: {detail}"
        else:
            message = f"Spotify request '{action}' failed (HTTP {status_code}): {detail}"
        super().__init__(message)


class DeserializationFailed(BotmError):
    def __init__(self, action, detail):
        self.action = action
        self.detail = detail
        super().__init__(f"Could not parse Spotify response for '{action}': {detail}")

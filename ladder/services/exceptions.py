class ServiceError(Exception):
    """Error raised by service functions and rendered by the API."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

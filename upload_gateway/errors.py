"""Error types raised by the gateway and rendered as ``{"error": ...}`` JSON."""


class GatewayError(Exception):
    status_code = 500
    message = "Internal Server Error"

    def __init__(self, message: str = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class Unauthorized(GatewayError):
    status_code = 401
    message = "Unauthorized"


class ServerMisconfigured(GatewayError):
    status_code = 500
    message = "UPLOAD_TOKEN not set"


class TooManyFiles(GatewayError):
    status_code = 400
    message = "Too many files"


class InvalidMediaType(GatewayError):
    status_code = 415
    message = "Only jpg/png/gif/mp4 allowed"


class PayloadTooLarge(GatewayError):
    status_code = 413
    message = "File too large"


class NoFilesReceived(GatewayError):
    status_code = 400
    message = "No files received"


class InternalError(GatewayError):
    status_code = 500


class UnexpectedField(GatewayError):
    status_code = 400
    message = "Unexpected field"


class InvalidMultipart(GatewayError):
    status_code = 400
    message = "Invalid multipart data"

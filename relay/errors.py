"""Error taxonomy.

Every error the relay raises on purpose derives from RelayError and carries
the HTTP status it maps to. create_app() registers a single handler that
renders them as JSON.

Propagation:
- AuthenticationError / MalformedRequestError: local to the request, the
  store is never touched.
- PersistenceError: surfaced as 500 so the provider re-delivers.
- NotificationError: raised inside the notifier only, logged and swallowed.
- ProviderError: an upstream GoCardless / YouSign call failed.
"""


class RelayError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self):
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class AuthenticationError(RelayError):
    status_code = 401


class MalformedRequestError(RelayError):
    status_code = 400


class NotFoundError(RelayError):
    status_code = 404


class PersistenceError(RelayError):
    status_code = 500


class NotificationError(RelayError):
    status_code = 502


class ProviderError(RelayError):
    status_code = 502


class ConfigurationError(RelayError):
    status_code = 500

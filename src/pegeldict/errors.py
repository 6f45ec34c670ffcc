class PegelDictError(Exception):
    pass


class ParseError(PegelDictError):
    """Malformed snapshot file or upstream payload."""


class UpstreamError(PegelDictError):
    """A call to the registry or the geocoder did not produce a usable result."""


class TransportError(UpstreamError):
    def __init__(self, message: str, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class MalformedPayloadError(UpstreamError, ParseError):
    pass


class UnsupportedQueryError(PegelDictError):
    pass


class MissingQueryError(PegelDictError):
    pass

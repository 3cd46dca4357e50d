"""devlog_capture — capture stdout and serve recent lines over a tiny HTTP API."""

__version__ = "1.0.0"

BUILD_INFO = f"devlog-capture v{__version__} - console log capture over HTTP"

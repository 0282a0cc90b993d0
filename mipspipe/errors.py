"""
Custom exception types for the mipspipe simulator.

Only initialization problems (bad encodings, bad assembly, bad configuration)
surface as exceptions. Anomalies inside a pipeline tick are logged and skipped.
"""


class SimulatorError(Exception):
    """Base exception for simulator errors."""

    def __init__(self, message: str, line_num: int = None, line_text: str = None):
        self.line_num = line_num
        self.line_text = line_text
        if line_num is not None:
            if line_text:
                message = f"Line {line_num}: {message}\n  {line_text}"
            else:
                message = f"Line {line_num}: {message}"
        super().__init__(message)


class ParseError(SimulatorError):
    """Exception raised for assembly parsing errors."""

    pass


class EncodingError(SimulatorError):
    """Exception raised for instruction encoding errors."""

    pass


class SymbolError(SimulatorError):
    """Exception raised for symbol/label errors."""

    pass


class DecodeError(SimulatorError):
    """Exception raised for malformed raw instruction encodings."""

    pass


class ConfigError(SimulatorError):
    """Raised when a simulator configuration is missing or invalid."""

    pass

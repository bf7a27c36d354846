"""Exception types shared by the ELM327 protocol engine and its transports."""


class ObdError(Exception):
    """Base class for every recoverable OBD client failure."""


class TransportError(ObdError):
    """The link could not be established or lost a required capability."""


class ProtocolError(ObdError, ValueError):
    """A request produced no usable telemetry (timeout, NO DATA, bad frame)."""


class DecodeError(ProtocolError):
    """A response frame could not be turned into a physical value."""


__all__ = ["ObdError", "TransportError", "ProtocolError", "DecodeError"]

"""
Propagation codec factory

Selects the codec for a configured propagator kind once, at construction.
"""

from typing import Union

from loadtrace.config import PropagatorKind, parse_enum
from loadtrace.propagation.codec_interface import PropagatorCodec
from loadtrace.propagation.codecs import B3MultiCodec, B3SingleCodec, JaegerCodec, W3CCodec


class CodecFactory:
    """Factory for propagation codecs"""

    @staticmethod
    def create(kind: Union[PropagatorKind, str]) -> PropagatorCodec:
        """Create the codec for a propagator kind

        Args:
            kind: PropagatorKind or its string value, e.g. "w3c"

        Returns:
            PropagatorCodec: Codec instance

        Raises:
            ConfigurationError: Unknown propagator kind
        """
        kind = parse_enum(PropagatorKind, kind, "propagator")

        if kind == PropagatorKind.W3C:
            return W3CCodec()
        elif kind == PropagatorKind.B3:
            return B3SingleCodec()
        elif kind == PropagatorKind.B3_MULTI:
            return B3MultiCodec()
        else:
            return JaegerCodec()


def create_codec(kind: Union[PropagatorKind, str]) -> PropagatorCodec:
    return CodecFactory.create(kind)

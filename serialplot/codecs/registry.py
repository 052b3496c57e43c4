# serialplot/codecs/registry.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from serialplot.core.errors import ConfigurationError, ParserError
from serialplot.model.session import ProtocolName
from serialplot.protocol.core.defs import Protocol
from .aresplot import AresplotCodec
from .base import Codec
from .justfloat import JustFloatCodec
from .text import DefaultCodec, FireWaterCodec
from .user import compile_user_parser


@dataclass(frozen=True)
class ParserStatus:
    requested: str
    active: str
    ok: bool
    message: str


def build_codec(
    protocol: "str | ProtocolName",
    parser_source: Optional[str] = None,
    *,
    proto: Optional[Protocol] = None,
    logger: Optional[logging.Logger] = None,
) -> Tuple[Codec, ParserStatus]:
    """
    Build the codec for a protocol name.

    Never raises for bad input: an unknown protocol or a rejected custom
    parser falls back to the Default codec and the returned status says why.
    """
    log = logger or logging.getLogger(__name__)
    requested = str(getattr(protocol, "value", protocol))

    try:
        name = ProtocolName.parse(protocol)
    except ConfigurationError as e:
        log.warning("UNKNOWN_PROTOCOL requested=%s", requested)
        return DefaultCodec(), ParserStatus(requested, ProtocolName.DEFAULT.value, False, f"{e.message} Using default.")

    if name is ProtocolName.CUSTOM:
        try:
            codec = compile_user_parser(parser_source)
        except ParserError as e:
            log.warning("CUSTOM_PARSER_REJECTED reason=%s", e.message)
            return DefaultCodec(), ParserStatus(requested, ProtocolName.DEFAULT.value, False, f"{e.message} Using default.")
        return codec, ParserStatus(requested, name.value, True, "Custom parser compiled and applied.")

    if name is ProtocolName.ARESPLOT:
        codec: Codec = AresplotCodec(proto, logger=logger)
    elif name is ProtocolName.JUSTFLOAT:
        codec = JustFloatCodec(logger=logger)
    elif name is ProtocolName.FIREWATER:
        codec = FireWaterCodec()
    else:
        codec = DefaultCodec()

    return codec, ParserStatus(requested, name.value, True, f"Parser set to '{name.value}'.")

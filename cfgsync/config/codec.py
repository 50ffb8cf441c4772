"""
Config Decoders

Maps an encoding type (file extension) to a decoder that turns raw bytes
into a nested dict.
"""

import configparser
import io
import json
import tomllib
from typing import Any, Callable

import yaml
from dotenv import dotenv_values

from cfgsync.common.exceptions import DecodeError


def _decode_yaml(text: str) -> Any:
    return yaml.safe_load(text)


def _decode_json(text: str) -> Any:
    return json.loads(text)


def _decode_toml(text: str) -> Any:
    return tomllib.loads(text)


def _decode_ini(text: str) -> Any:
    """Sections become top-level keys; DEFAULT entries stay at the root"""
    parser = configparser.ConfigParser(interpolation=None)
    parser.read_string(text)

    data: dict[str, Any] = dict(parser.defaults())
    for section in parser.sections():
        # Section items inherit the DEFAULT entries
        data[section] = dict(parser.items(section))
    return data


def _decode_dotenv(text: str) -> Any:
    return dict(dotenv_values(stream=io.StringIO(text)))


DECODERS: dict[str, Callable[[str], Any]] = {
    "yaml": _decode_yaml,
    "yml": _decode_yaml,
    "json": _decode_json,
    "toml": _decode_toml,
    "ini": _decode_ini,
    "env": _decode_dotenv,
    "dotenv": _decode_dotenv,
}

# Exceptions a decoder raises for malformed content
_PARSE_ERRORS = (
    yaml.YAMLError,
    json.JSONDecodeError,
    tomllib.TOMLDecodeError,
    configparser.Error,
    UnicodeDecodeError,
)


def supported_encodings() -> list[str]:
    """Encoding types with a registered decoder"""
    return list(DECODERS)


def decode(raw: bytes | str, encoding_type: str, source: str = "<config>") -> dict[str, Any]:
    """
    Decode raw config content.

    Args:
        raw: File or remote value content
        encoding_type: Extension selecting the decoder (yaml, json, ...)
        source: Name used in error messages

    Returns:
        Decoded mapping; empty content gives an empty dict

    Raises:
        DecodeError: Unknown encoding, malformed content, or non-mapping top level
    """
    decoder = DECODERS.get(encoding_type.lower())
    if decoder is None:
        raise DecodeError(source, encoding_type, "unsupported encoding")

    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        data = decoder(text)
    except _PARSE_ERRORS as e:
        raise DecodeError(source, encoding_type, str(e)) from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise DecodeError(
            source,
            encoding_type,
            f"top level must be a mapping, got {type(data).__name__}",
        )

    return data

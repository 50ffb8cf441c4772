"""
Command-line Flags

Loader flags shared by the library entry point and the CLI:
    --config <locator>          path or provider+protocol URL
    --isRemoteConfig[=bool]     force remote interpretation
    --set key=value             explicit override (repeatable)

Flags given on the command line override every other layer. Flags left
unset contribute their defaults at the lowest precedence.
"""

import argparse
from dataclasses import dataclass, field
from typing import Any

# Config keys the loader flags are bound to
FLAG_KEYS = {"config": "config", "is_remote_config": "isremoteconfig"}

FLAG_DEFAULTS: dict[str, Any] = {"config": "", "is_remote_config": False}


def str2bool(value: str | bool) -> bool:
    """argparse type for --flag=true/false"""
    if isinstance(value, bool):
        return value
    lowered = value.strip().lower()
    if lowered in ("1", "t", "true", "y", "yes", "on"):
        return True
    if lowered in ("0", "f", "false", "n", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value: '{value}'")


def parse_override(item: str) -> tuple[str, str]:
    """argparse type for --set key=value"""
    key, sep, value = item.partition("=")
    key = key.strip()
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got '{item}'")
    return key, value


def add_loader_flags(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Add the loader flags to parser; absent flags stay absent from the namespace"""
    parser.add_argument(
        "--config",
        default=argparse.SUPPRESS,
        help="Config file path or remote URL (e.g. etcd+http://127.0.0.1:2379/app/config.yaml)",
    )
    parser.add_argument(
        "--isRemoteConfig",
        dest="is_remote_config",
        nargs="?",
        const=True,
        type=str2bool,
        default=argparse.SUPPRESS,
        help="Whether to choose remote config",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        type=parse_override,
        default=argparse.SUPPRESS,
        metavar="KEY=VALUE",
        help="Override a config key (repeatable)",
    )
    return parser


@dataclass
class LoaderFlags:
    """Parsed loader flags"""
    config: str = ""
    is_remote_config: bool = False
    # Flags explicitly given, as config key -> value
    overrides: dict[str, Any] = field(default_factory=dict)
    # Defaults of flags not given, as config key -> value
    defaults: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_namespace(cls, namespace: argparse.Namespace) -> "LoaderFlags":
        given = vars(namespace)
        flags = cls(
            config=given.get("config", FLAG_DEFAULTS["config"]),
            is_remote_config=given.get("is_remote_config", FLAG_DEFAULTS["is_remote_config"]),
        )

        for dest, key in FLAG_KEYS.items():
            if dest in given:
                flags.overrides[key] = given[dest]
            else:
                flags.defaults[key] = FLAG_DEFAULTS[dest]

        for key, value in given.get("overrides", []):
            flags.overrides[key] = value

        return flags


def parse_loader_flags(argv: list[str] | None = None) -> LoaderFlags:
    """
    Parse loader flags, ignoring flags that belong to the host program.

    Args:
        argv: Arguments without the program name; defaults to sys.argv[1:]
    """
    parser = add_loader_flags(argparse.ArgumentParser(add_help=False))
    namespace, _ = parser.parse_known_args(argv)
    return LoaderFlags.from_namespace(namespace)

#!/usr/bin/env python
"""
The main module provides the executable entrypoint for tenantop
"""

# Standard
from typing import Any, Dict, Iterator, List, Optional, Tuple
import argparse

# First Party
import aconfig
import alog

# Local
from .cmd import CmdBase, RunOperatorCmd
from .config import library_config
from .log_format import TenantOpJsonFormatter

## Constants ###################################################################

log = alog.use_channel("MAIN")

# All available commands. The first one runs when no command is given.
COMMANDS: List[CmdBase] = [RunOperatorCmd()]

## Helpers #####################################################################


def _config_leaves(
    config_obj: aconfig.AttributeAccessDict, path: List[str]
) -> Iterator[Tuple[List[str], Any]]:
    """Walk the nested library config yielding the path to each leaf value"""
    for key, val in config_obj.items():
        if isinstance(val, aconfig.AttributeAccessDict):
            yield from _config_leaves(val, path + [key])
        else:
            yield path + [key], val


def add_library_config_args(
    parser, config_obj: Optional[aconfig.AttributeAccessDict] = None
) -> Dict[str, List[str]]:
    """Add a --section.key override for every leaf of the library config

    Returns:
        setters:  Dict[str, List[str]]
            Mapping from the argparse dest name to the config path it sets
    """
    config_obj = config_obj if config_obj is not None else library_config
    setters = {}
    for config_path, val in _config_leaves(config_obj, []):
        arg_name = ".".join(config_path)
        dest_name = "_".join(config_path)
        kwargs = {
            "default": val,
            "dest": dest_name,
            "help": f"Library config override for {arg_name} (see tenantop.config)",
        }
        if isinstance(val, list):
            kwargs["nargs"] = "*"
        elif isinstance(val, bool):
            kwargs["action"] = "store_true"
        elif val is not None:
            kwargs["type"] = type(val)

        if (
            f"--{arg_name}"
            not in parser._option_string_actions  # pylint: disable=protected-access
        ):
            parser.add_argument(f"--{arg_name}", **kwargs)
            setters[dest_name] = config_path
    return setters


def update_library_config(args: argparse.Namespace, setters: Dict[str, List[str]]):
    """Write the parsed overrides back into the library config"""
    for dest_name, config_path in setters.items():
        section = library_config
        for key in config_path[:-1]:
            section = section[key]
        section[config_path[-1]] = getattr(args, dest_name)


def configure_logging():
    """Reconfigure alog from the (possibly overridden) library config"""
    alog.configure(
        default_level=library_config.log_level,
        filters=library_config.log_filters,
        formatter=TenantOpJsonFormatter() if library_config.log_json else "pretty",
        thread_id=library_config.log_thread_id,
    )


## Main ########################################################################


def main(argv: Optional[List[str]] = None):
    """The main module provides the executable entrypoint for tenantop"""
    parser = argparse.ArgumentParser(description=__doc__)
    subparsers = parser.add_subparsers(help="Available commands", dest="command")

    # Every command accepts the library config overrides
    command_parsers = {}
    setters = {}
    for command in COMMANDS:
        command_parser = command.add_subparser(subparsers)
        library_args = command_parser.add_argument_group("Library Configuration")
        setters[command.name] = add_library_config_args(library_args)
        command_parsers[command.name] = command_parser

    # Use a preliminary parser to check for the presence of a command and fall
    # back to the default command if not found
    check_parser = argparse.ArgumentParser(add_help=False)
    check_parser.add_argument("command", nargs="?")
    check_args, _ = check_parser.parse_known_args(argv)
    if check_args.command in command_parsers:
        args = parser.parse_args(argv)
    else:
        args = command_parsers[COMMANDS[0].name].parse_args(argv)
        args.command = COMMANDS[0].name
    log.debug2("Running command %s", args.command)

    update_library_config(args, setters[args.command])
    configure_logging()
    args.func(args)


if __name__ == "__main__":  # pragma: no cover
    main()

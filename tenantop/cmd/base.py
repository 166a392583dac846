"""
Base class for all tenantop commands
"""

# Standard
import abc
import argparse


class CmdBase(abc.ABC):
    """A command owns one subcommand of the tenantop entrypoint. Subclasses set
    the name and fill in their own arguments, and the base class builds the
    subparser from the subclass docstring.
    """

    name: str = None

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Add this command's subparser and bind it to cmd()

        Args:
            subparsers (argparse._SubParsersAction): The subparser section for
                the central main parser

        Returns:
            subparser (argparse.ArgumentParser): The configured parser for this
                command
        """
        assert self.name, f"{type(self).__name__} has no command name"
        parser = subparsers.add_parser(self.name, help=self.__doc__)
        self.add_args(parser)
        parser.set_defaults(func=self.cmd)
        return parser

    @abc.abstractmethod
    def add_args(self, parser: argparse.ArgumentParser):
        """Add the command specific arguments"""

    @abc.abstractmethod
    def cmd(self, args: argparse.Namespace):
        """Execute the command with the parsed arguments

        Args:
            args (argparse.Namespace): The parsed command line arguments
        """

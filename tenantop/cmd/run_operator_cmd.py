"""
This is the main entrypoint command for running the operators
"""
# Standard
from typing import List, Optional
import argparse
import os
import signal

# Third Party
import yaml

# First Party
import alog

# Local
from .. import config
from ..manager import OperatorManager
from ..store import DryRunStore, OpenshiftStore, StoreBase
from .base import CmdBase

log = alog.use_channel("MAIN")


class RunOperatorCmd(CmdBase):
    __doc__ = __doc__

    name = "run"

    ## Interface ##

    def add_args(self, parser: argparse.ArgumentParser):
        runtime_args = parser.add_argument_group("Runtime Configuration")
        runtime_args.add_argument(
            "--resource_dir",
            "-r",
            default=None,
            help="(dry run) Path to a directory of yaml files that should exist in the cluster",
        )

    def cmd(self, args: argparse.Namespace):
        # Validate args
        assert args.resource_dir is None or (
            config.dry_run and os.path.isdir(args.resource_dir)
        ), "Can only specify --resource_dir with dry run and it must point to a valid directory"

        # Parse pre-populated resources if needed
        resources = self._parse_resource_dir(args.resource_dir)
        store = self._setup_store(resources)

        manager = OperatorManager(store, controller_names=config.controllers)

        # Register the signal handler to stop the controllers
        def do_stop(*_, **__):  # pragma: no cover
            manager.stop()

        signal.signal(signal.SIGINT, do_stop)
        signal.signal(signal.SIGTERM, do_stop)

        log.info("Starting controllers: %s", config.controllers)
        manager.start(threadiness=config.workers)
        manager.wait()

        # All done!
        log.info("SHUTTING DOWN")
        if manager.failed:
            raise SystemExit(1)

    ## Impl ##

    @staticmethod
    def _parse_resource_dir(resource_dir: Optional[str]) -> List[dict]:
        """If given, this will parse all yaml files found in the given directory"""
        all_resources = []
        if resource_dir is not None:
            for fname in sorted(os.listdir(resource_dir)):
                if fname.endswith(".yaml") or fname.endswith(".yml"):
                    resource_path = os.path.join(resource_dir, fname)
                    log.debug3("Reading resource file [%s]", resource_path)
                    with open(resource_path, encoding="utf-8") as handle:
                        all_resources.extend(
                            resource
                            for resource in yaml.safe_load_all(handle)
                            if resource
                        )
        return all_resources

    @staticmethod
    def _setup_store(resources: List[dict]) -> StoreBase:
        """Create the store. In dry run mode the store is seeded with the given
        resources and the system namespace the tenant controller requires.
        """
        if not config.dry_run:
            log.info("Running against the cluster")
            return OpenshiftStore()

        log.info("Running DRY RUN")
        system_namespace = config.cluster.system_namespace
        if not any(
            resource.get("kind") == "Namespace"
            and (resource.get("metadata") or {}).get("name") == system_namespace
            for resource in resources
        ):
            resources = [
                {
                    "apiVersion": "v1",
                    "kind": "Namespace",
                    "metadata": {"name": system_namespace},
                }
            ] + resources
        return DryRunStore(resources=resources)

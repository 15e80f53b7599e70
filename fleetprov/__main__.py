import os
import sys


def entrypoint() -> None:
    from fleetprov.utils.global_mode import GlobalMode

    gm = GlobalMode.from_env(os.environ, sys.argv)

    # rich is slow to import; only load the logger and the rest of the CLI
    # once the global mode is settled
    from fleetprov.cli.main import main
    from fleetprov.config import GlobalConfig
    from fleetprov.log import FleetprovConsoleLogger

    logger = FleetprovConsoleLogger(gm)
    gc = GlobalConfig.load_from_config(gm, logger)
    sys.exit(main(gm, gc, sys.argv))


if __name__ == "__main__":
    entrypoint()

# Importing these modules defines their command classes, which is all it
# takes to hook them into the command tree.
from ..osimage import configure_cli  # noqa: F401
from ..scan import scan_cli  # noqa: F401
from . import config_cli, version_cli  # noqa: F401

from typing import Final

FLEETPROV_SEMVER: Final = "0.3.0"
FLEETPROV_USER_AGENT: Final = f"fleetprov/{FLEETPROV_SEMVER}"

COPYRIGHT_NOTICE: Final = """\
License: Apache-2.0 <https://www.apache.org/licenses/LICENSE-2.0>
\
"""

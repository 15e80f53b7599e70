# Should be all-lower for consistent help output
FLEETPROV_ENTRYPOINT_NAME = "fleetprov"

"""Constants for the lanspot presence protocol."""

# Network constants
BROADCAST_PORT = 1901  # Shared control/broadcast port
DATA_PORT = 1902  # Default per-point data port
BROADCAST_ADDRESS = "255.255.255.255"  # Link-local broadcast
BIND_HOST = "0.0.0.0"

# Advertisement
ADVERTISE_INTERVAL = 3.0  # Seconds between alive broadcasts

# Search response codes
CODE_OK = 0

# Point kind filter matching every kind
ANY_KIND = "*"

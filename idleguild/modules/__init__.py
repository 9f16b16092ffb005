"""
Domain modules.

Each subpackage owns one slice of the game: pure engines (no I/O) beside a
service that wraps them in transactions and emits events. Import services
from their own modules, e.g. `idleguild.modules.economy.service`.
"""

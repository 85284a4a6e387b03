# Ledger backends
#
# Provides:
#  - PublicLedger / PrivateLedger abstract clients (base.py)
#  - Hyperledger Besu over JSON-RPC with EEA privacy extensions (besu.py)
#  - In-memory sandbox network with Python contract models (sandbox.py)
#
# Only base.py is imported eagerly; pick a backend explicitly.

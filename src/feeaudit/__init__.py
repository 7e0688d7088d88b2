"""
feeaudit - Fee Distributor Hotfix Verifier

Audits the node fee-numerator bookkeeping of a staking protocol and checks a
published hotfix contract against the corrections recomputed from chain state.

Main Components:
- Core: numerator recomputation, discrepancy collection, hotfix validation
- Ledger: read-only web3.py access to the storage registry and contracts
- CLI: the `feeaudit` command-line verifier
"""

__version__ = "0.1.0"
__author__ = "feeaudit developers"

__all__ = []

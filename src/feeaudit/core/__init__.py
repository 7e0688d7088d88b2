"""
feeaudit Core Module

Core functionality for the fee distributor audit:
- Ledger reader interfaces and the web3.py implementation
- Expected numerator recomputation from minipools
- Discrepancy collection across the node registry
- Cross-validation of the hotfix contract
"""

__all__ = []

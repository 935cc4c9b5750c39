"""
Settlement Modules.

State machines and services of the lease settlement engine:
- lease      agreement record and lifecycle
- pdc        post-dated check ledger
- billing    statement computation and payment reconciliation
- signature  dual-party OTP lease authorization
"""

"""
Gem Kernel - document identity and authorization core

The slice of the gemstone-trading ERP that guards every document-creation
action:
- Role/permission gate with denial auditing
- Transactional SKU and voucher number allocation
- Identifier formatting (SKU, voucher number, share tokens)
- Mod-9 price checksum codec
"""

__version__ = "0.1.0"

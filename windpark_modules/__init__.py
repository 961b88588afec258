"""
Windpark Modules.

Persistence-backed services over the kernel and the pure engines.

Modules:
- masterdata: parks, plots, leases, persons, funds, shareholders, revenues
- invoicing: invoices and credit notes
- distribution: fund profit distributions
- lease_revenue: yearly usage fee settlements and advances
"""

"""
Event finances: income receipts and expense bills with an approval workflow.
"""

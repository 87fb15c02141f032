"""Reimbursement forms service: forms, transactions and receipts with PDF export."""

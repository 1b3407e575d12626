"""Completion-based invoicing and payments for a freelance marketplace.

Projects are billed in three stages: an upfront deposit at activation, one
invoice per approved task, and a final settlement once every task is
approved. Each financial transition notifies both parties.
"""

__version__ = "0.1.0"

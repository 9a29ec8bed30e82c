"""CFME ops: reboot and VIP cutover automation for CloudForms/ManageIQ appliances."""

__version__ = "0.1.0"

"""
VPA In-Place Request Resizer
Applies Vertical Pod Autoscaler recommendations to running pods
through the resize subresource, with a CSV audit ledger.
"""

__version__ = "0.1.0"

"""
rxflow: prescription subscription fulfillment tracking.

Subscriptions pre-generate a monthly series of fulfillments. The services
package derives aggregate status, drives fulfillment transitions, keeps the
communication log and orders the dashboard so actionable work comes first.
"""

__version__ = "0.1.0"

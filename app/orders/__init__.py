"""
Orders: customer orders, guest checkout sessions and fulfillment orders.
"""

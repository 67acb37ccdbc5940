"""Storefront service: checkout, payment/shipping webhooks and order tracking."""

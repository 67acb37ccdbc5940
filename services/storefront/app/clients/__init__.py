"""HTTP/SDK clients for the payment, carrier and email providers."""

from django.dispatch import Signal

# Sent after a unit's reservations are consumed at kitting.
# kwargs: unit_id, lines=[{"sku", "quantity"}], consumed_on (date)
stock_consumed = Signal()

# Sent after consumed stock is returned to bins (QC failure, surplus return).
# kwargs: unit_id, lines=[{"sku", "quantity"}], returned_on (date)
consumed_stock_returned = Signal()

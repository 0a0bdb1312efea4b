# Overview: Signals sent after inventory transactions commit.

from blinker import Namespace

_signals = Namespace()

# kwargs: tenant_id, location_id, product_id, quantity_on_hand, quantity_allocated
stock_changed = _signals.signal("stock-changed")

# kwargs: tenant_id, location_id, product_id, quantity_available, reorder_point
low_stock = _signals.signal("low-stock")

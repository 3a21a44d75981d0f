"""Stable finding codes. Callers branch on these strings."""

# Transaction
TRANSACTION_NOT_FOUND = "TRANSACTION_NOT_FOUND"
INVALID_TRANSACTION_STATUS = "INVALID_TRANSACTION_STATUS"
TRANSACTION_STATUS_VALID = "TRANSACTION_STATUS_VALID"
ALREADY_RETURNED = "ALREADY_RETURNED"

# Items
ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
ITEM_ALREADY_RETURNED = "ITEM_ALREADY_RETURNED"
ITEM_NOT_PICKED_UP = "ITEM_NOT_PICKED_UP"
ITEM_AVAILABLE_FOR_PICKUP = "ITEM_AVAILABLE_FOR_PICKUP"
ITEM_ALREADY_FULLY_PICKED_UP = "ITEM_ALREADY_FULLY_PICKED_UP"

# Pickup quantities
INVALID_PICKUP_QUANTITY = "INVALID_PICKUP_QUANTITY"
PICKUP_QUANTITY_EXCEEDED = "PICKUP_QUANTITY_EXCEEDED"
PARTIAL_PICKUP_WARNING = "PARTIAL_PICKUP_WARNING"
PICKUP_QUANTITY_VALID = "PICKUP_QUANTITY_VALID"

# Batches
BATCH_ITEM_LIMIT_EXCEEDED = "BATCH_ITEM_LIMIT_EXCEEDED"
BATCH_QUANTITY_LIMIT_EXCEEDED = "BATCH_QUANTITY_LIMIT_EXCEEDED"
LARGE_BATCH_WARNING = "LARGE_BATCH_WARNING"
BATCH_SIZE_VALID = "BATCH_SIZE_VALID"
DUPLICATE_ITEMS_IN_BATCH = "DUPLICATE_ITEMS_IN_BATCH"
NO_DUPLICATE_ITEMS = "NO_DUPLICATE_ITEMS"

# Timing
WEEKEND_PICKUP_WARNING = "WEEKEND_PICKUP_WARNING"
OUTSIDE_BUSINESS_HOURS_WARNING = "OUTSIDE_BUSINESS_HOURS_WARNING"
BUSINESS_HOURS_VALID = "BUSINESS_HOURS_VALID"

# Concurrency
CONCURRENT_PICKUP_DETECTED = "CONCURRENT_PICKUP_DETECTED"
NO_CONCURRENT_PICKUP = "NO_CONCURRENT_PICKUP"

# Returns
LOST_ITEM_INVALID_QUANTITY = "LOST_ITEM_INVALID_QUANTITY"
RETURNED_ITEM_INVALID_QUANTITY = "RETURNED_ITEM_INVALID_QUANTITY"
EXCESS_TOTAL_QUANTITY = "EXCESS_TOTAL_QUANTITY"
PARTIAL_RETURN_QUANTITY = "PARTIAL_RETURN_QUANTITY"
RETURN_QUANTITY_VALID = "RETURN_QUANTITY_VALID"
REPLACEMENT_COST_UNAVAILABLE = "REPLACEMENT_COST_UNAVAILABLE"
INVALID_RETURN_TIME = "INVALID_RETURN_TIME"

# Codes that describe a race or a repeated request rather than bad input.
CONFLICT_CODES = frozenset({
    CONCURRENT_PICKUP_DETECTED,
    ALREADY_RETURNED,
})

# A return naming an item that is already complete is a repeat of an
# earlier return. A pickup of that item is plain bad input.
RETURN_CONFLICT_CODES = CONFLICT_CODES | {ITEM_ALREADY_RETURNED}

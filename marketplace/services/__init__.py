# Services package.
#
# Each module exposes a focused set of async functions that own the
# records of a single domain aggregate:
#
#   review_service - reviews and the per-product rating aggregate
#   notification_service - per-user notifications and their read state
#   wishlist_service - (user, product) wishlist membership
#
# All service functions accept an AsyncSession as their first argument.
# Every write runs inside ``marketplace.database.transaction`` so the
# precondition read, the mutating statement and the re-read commit or
# roll back together; failures surface as ``marketplace.exceptions``.

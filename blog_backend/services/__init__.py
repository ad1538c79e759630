# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and storage access for one concern:
#
#   user_service    registration, login, blogs list and user settings
#   comment_tree    flat post queries + tree materialization (unflatten)
#   post_service    create / edit / cascading delete of posts
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Public functions are wrapped with ``opaque`` and
# report failure as None / False / [] rather than raising.

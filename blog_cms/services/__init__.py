# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business rules and database access for a single aggregate:
#
#   post_service      — authoring, publication lifecycle, listings, search
#   category_service  — admin-managed categories with a delete guard
#   tag_service       — normalised, lazily created tags
#   comment_service   — moderated comments on published posts
#   user_service      — identity sync, profiles, admin user listing
#   admin_service     — dashboard statistics
#
# All service functions accept an AsyncSession as their first argument and
# the caller's Identity explicitly, so the router layer controls both the
# transaction boundary (``get_db``) and who is asking.  Public functions
# return a ServiceResult instead of raising for expected failures.

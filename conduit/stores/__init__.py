# Store package.
#
# Each module owns the tables of one persistence capability:
#
#   articles : articles, article/tag junction rows, favorites
#   users    : users and the follow relation
#   tags     : tag entities and tag lookups by article
#
# Stores hold no state.  Every method takes the AsyncSession of the current
# unit of work as its first argument and never commits; the transaction
# boundary belongs to ``StorageRunner``.
from conduit.stores.articles import ArticleStore
from conduit.stores.tags import TagStore
from conduit.stores.users import UserStore

__all__ = ["ArticleStore", "TagStore", "UserStore"]

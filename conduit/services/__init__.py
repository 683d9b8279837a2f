# Services package.
#
#   article_service : ArticleService: read composition and multi-step writes
#                      for articles, on top of the article/user/tag stores
#   user_service    : account creation, lookup and follow for the user API
#
# ArticleService drives its own transaction boundaries through
# ``StorageRunner``.  user_service functions take an AsyncSession and leave
# the commit to the ``get_db`` dependency.

from rest_framework.pagination import PageNumberPagination


class StandardPagination(PageNumberPagination):
    """Allow clients to override page size via ?page_size=N (capped at 100)."""
    page_size_query_param = 'page_size'
    max_page_size = 100


class ConversationPagination(StandardPagination):
    """Chat threads are read oldest-first and tend to be long."""
    page_size = 100
    max_page_size = 500

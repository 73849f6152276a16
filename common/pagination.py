from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Shared pagination for sale, deposit and report list endpoints.

    Clients can tune page size with `?page_size=`; values above the cap are
    clamped so a single station ledger page stays small.
    """

    page_size_query_param = "page_size"
    max_page_size = 200

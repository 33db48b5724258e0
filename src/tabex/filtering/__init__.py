"""Filter engine.

Filters are the conditions of flow control directives and of the
`filter` CLI command: `${count} > 3`, `${env} in [dev|qa]`,
`${report} is readable-file`, chained with ` & `.
"""

from .comparators import Comparator
from .files import FileChecker, PathFileChecker
from .filters import ComparisonFilter, Filter, FilterList, UnaryFilter

__all__ = (
    'Comparator',
    'ComparisonFilter',
    'FileChecker',
    'Filter',
    'FilterList',
    'PathFileChecker',
    'UnaryFilter',
)

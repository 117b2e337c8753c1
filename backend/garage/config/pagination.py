DEFAULT_LIMIT = 10
MAX_LIMIT = 100

def normalize_pagination(limit_raw, offset_raw, default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT):
    try:
        limit = int(limit_raw) if limit_raw is not None else default_limit
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)
    return limit, offset


def pagination_meta(total: int, limit: int, offset: int, returned: int):
    return {
        'total': total,
        'limit': limit,
        'offset': offset,
        'returned': returned,
        'has_more': offset + returned < total,
    }

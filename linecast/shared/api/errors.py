E_INTERNAL = 'E_INTERNAL_ERROR'
E_INVALID_PARAMS = 'E_INVALID_PARAMS'
E_METHOD_NOT_ALLOWED = 'E_METHOD_NOT_ALLOWED'
E_NOT_FOUND = 'E_NOT_FOUND'

"""Base utilities for RPC handlers.

Provides decorators and helpers for standardized error handling across
all RPC handler modules.
"""

from __future__ import annotations

import logging
import sqlite3
from functools import wraps
from typing import Any, Callable

from ...errors import FolioError, StorageError, get_error_code
from ..types import INTERNAL_ERROR, INVALID_PARAMS, RequestContext, RpcError

logger = logging.getLogger(__name__)


def rpc_handler(method_name: str) -> Callable:
    """Decorator that converts domain errors to RpcError.

    Standardizes error handling for RPC handlers by:
    1. Propagating RpcError unchanged
    2. Converting FolioError to structured RpcError
    3. Converting sqlite errors to a storage error
    4. Converting ValueError/TypeError to parameter errors (-32602)
    5. Logging and converting unexpected exceptions to internal error (-32603)

    Args:
        method_name: The RPC method name (e.g., "blocks/create")

    Usage:
        @rpc_handler("blocks/create")
        def handle_blocks_create(ctx: RequestContext, *, page_id: str) -> dict:
            block = blocks_db.create_block(page_id=page_id, owner_id=ctx.owner_id)
            return {"id": block.id}
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(ctx: RequestContext, **kwargs: Any) -> Any:
            try:
                return func(ctx, **kwargs)
            except RpcError:
                raise
            except FolioError as e:
                raise RpcError.from_domain(e, get_error_code(e)) from e
            except sqlite3.Error as e:
                logger.error("Storage failure in RPC handler %s: %s", method_name, e, exc_info=True)
                err = StorageError(f"Storage failure in {method_name}", operation=method_name)
                raise RpcError.from_domain(err, get_error_code(err)) from e
            except ValueError as e:
                raise RpcError(code=INVALID_PARAMS, message=str(e)) from e
            except TypeError as e:
                raise RpcError(code=INVALID_PARAMS, message=f"Invalid parameter: {e}") from e
            except Exception as e:
                logger.error(
                    "Internal error in RPC handler %s: %s",
                    method_name,
                    e,
                    exc_info=True,
                )
                raise RpcError(
                    code=INTERNAL_ERROR,
                    message=f"Internal error in {method_name}",
                    data={"error_type": type(e).__name__},
                ) from e

        return wrapper

    return decorator


def require_params(*required: str) -> Callable:
    """Decorator that validates required parameters are present.

    Args:
        *required: Names of required parameters

    Raises:
        RpcError: If any required parameter is missing
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            missing = [p for p in required if p not in kwargs or kwargs[p] is None]
            if missing:
                raise RpcError(
                    code=INVALID_PARAMS,
                    message=f"Missing required parameters: {', '.join(missing)}",
                    data={"missing": missing},
                )
            return func(*args, **kwargs)

        return wrapper

    return decorator

"""
Esquema GraphQL del Query Service.

El esquema se define en SDL y los campos raiz se resuelven con un root value
cuyos metodos delegan en QueryService. Los campos de connection son non-null:
si su resolver falla (cursor invalido, argumento fuera de rango) la respuesta
lleva `data: null` y el error estructurado en `errors`.
"""
from typing import Any, Dict, List, Optional

from graphql import ExecutionResult, GraphQLError, build_schema, graphql

from content_sync.application.services.query_service import QueryService
from content_sync.shared.exceptions.base import AppException
from content_sync.shared.exceptions.domain import StoreUnavailableError


SCHEMA_SDL = """
type Author {
  id: ID!
  name: String!
  slug: String!
  avatar: String
}

type Category {
  id: ID!
  name: String!
  slug: String!
  description: String
  count: Int!
}

type Tag {
  id: ID!
  name: String!
  slug: String!
  description: String
  count: Int!
}

type FeaturedImage {
  id: ID
  sourceUrl: String
}

type Post {
  id: ID!
  slug: String!
  status: String!
  title: String!
  content: String!
  excerpt: String!
  date: String!
  modified: String!
  author: Author
  featuredImage: FeaturedImage
  categories: [Category!]!
  tags: [Tag!]!
}

type PageInfo {
  hasNextPage: Boolean!
  hasPreviousPage: Boolean!
  startCursor: String
  endCursor: String
}

type PostConnection {
  nodes: [Post!]!
  pageInfo: PageInfo!
}

type CategoryConnection {
  nodes: [Category!]!
  pageInfo: PageInfo!
}

type TagConnection {
  nodes: [Tag!]!
  pageInfo: PageInfo!
}

type Query {
  health: Boolean!
  dbStatus: Boolean!
  post(slug: String!): Post
  posts(first: Int, after: String, category: String, tag: String, search: String): PostConnection!
  categories(first: Int, after: String): CategoryConnection!
  tags(first: Int, after: String): TagConnection!
  category(slug: String!): Category
  tag(slug: String!): Tag
}
"""

schema = build_schema(SCHEMA_SDL)


class QueryRoot:
    """
    Root value de Query.

    El resolver por defecto de graphql-core llama a cada metodo como
    `metodo(info, **argumentos)`.
    """

    def __init__(self, service: QueryService):
        self._service = service

    async def health(self, info) -> bool:
        return await self._service.health()

    async def dbStatus(self, info) -> bool:
        return await self._service.db_status()

    async def post(self, info, slug: str):
        return await self._service.post(slug)

    async def posts(self, info, first: Optional[int] = None, after: Optional[str] = None,
                    category: Optional[str] = None, tag: Optional[str] = None, search: Optional[str] = None):
        return await self._service.posts(first=first, after=after, category=category, tag=tag, search=search)

    async def categories(self, info, first: Optional[int] = None, after: Optional[str] = None):
        return await self._service.categories(first=first, after=after)

    async def tags(self, info, first: Optional[int] = None, after: Optional[str] = None):
        return await self._service.tags(first=first, after=after)

    async def category(self, info, slug: str):
        return await self._service.category(slug)

    async def tag(self, info, slug: str):
        return await self._service.tag(slug)


async def execute_query(
    service: QueryService,
    query: str,
    variables: Optional[Dict[str, Any]] = None,
    operation_name: Optional[str] = None,
) -> ExecutionResult:
    """Ejecuta una consulta contra el esquema."""
    return await graphql(
        schema,
        query,
        root_value=QueryRoot(service),
        variable_values=variables,
        operation_name=operation_name,
    )


def store_failure(result: ExecutionResult) -> Optional[StoreUnavailableError]:
    """Primer error de store no disponible del resultado, si lo hay."""
    for error in result.errors or ():
        if isinstance(error.original_error, StoreUnavailableError):
            return error.original_error
    return None


def format_error(error: GraphQLError) -> Dict[str, Any]:
    """
    Error GraphQL -> dict serializable.

    Las AppException exponen su error_code; errores inesperados no filtran
    detalles internos.
    """
    formatted = error.formatted
    original = error.original_error
    if isinstance(original, AppException):
        formatted["extensions"] = {"code": original.error_code}
    elif original is not None:
        formatted["message"] = "Error interno resolviendo la consulta"
        formatted["extensions"] = {"code": "INTERNAL_ERROR"}
    else:
        formatted["extensions"] = {"code": "GRAPHQL_VALIDATION_FAILED"}
    return formatted


def format_result(result: ExecutionResult) -> Dict[str, Any]:
    body: Dict[str, Any] = {"data": result.data}
    if result.errors:
        body["errors"] = [format_error(e) for e in result.errors]
    return body


def error_body(message: str, code: str) -> Dict[str, List[Dict[str, Any]]]:
    return {"data": None, "errors": [{"message": message, "extensions": {"code": code}}]}

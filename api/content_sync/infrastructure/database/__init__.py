"""
Configuración de base de datos.

Importa todos los modelos para que se registren con Base
antes de crear las tablas.
"""
from content_sync.infrastructure.database.models import (
    AuthorModel,
    CategoryModel,
    TagModel,
    PostModel,
    PostCategoryModel,
    PostTagModel
)

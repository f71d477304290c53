from .embedding import EmbeddingSpace
from .taxonomy import Category, Subcategory, PartType, TaxonomyNode, TaxonomyLevel
from .product import ProductInput
from .classifier import ClassificationResult, MatchType, QualityBand
from .cache import CacheEntry
from .batch import BatchResult, BatchStats, CategorizedProduct, QualityStats

from .clinvar import ClinvarVariantQueries, shape_variant_summary  # noqa: F401
from .liftover import LiftoverResolver  # noqa: F401

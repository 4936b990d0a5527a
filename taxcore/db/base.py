# Import all models so Base.metadata sees every table before create_all
from taxcore.db.base_class import Base  # noqa: F401
from taxcore.models.expense import Expense  # noqa: F401
from taxcore.models.models import EmploymentDeduction, IncomeRecord, Invoice, TaxEntity  # noqa: F401
from taxcore.models.tax_models import (  # noqa: F401
    TaxRemittance,
    VATRemittance,
    WithholdingCredit,
    WithholdingRecord,
    WithholdingRemittance,
)

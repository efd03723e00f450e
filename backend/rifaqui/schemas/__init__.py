from .checkout import (
    PixCheckoutCreate,
    PixCheckoutRead,
    PublicationFeeCheckoutCreate,
    PublicationFeeCheckoutRead,
)
from .maintenance import (
    BackfillRequest,
    BackfillStatisticsRead,
    CleanupLogRead,
    CleanupStatusRead,
    RepairCandidateRead,
)

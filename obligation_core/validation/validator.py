"""
Tracking Preconditions

DESIGN DECISION: Every precondition is checked BEFORE the repository is
touched. A container that cannot be tracked fails fast with a typed error
and nothing is written.

Checks, in order:
1. Fund type is one we know how to pay from
2. Category id, if present, is a well-formed UUID
3. A linked account exists when the strategy has to move money

IMPORTANT: Validation NEVER silently fixes issues. A malformed category id
is not dropped - the container has to be corrected.
"""

import re
from typing import Optional

from obligation_core.errors import ConfigurationError, ValidationError
from obligation_core.models.obligation import FundType, RecurringContainer


CATEGORY_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class TrackingValidator:
    """
    Validates a container before a tracking artifact is created for it.
    """

    def validate_fund_type(self, fund_type: Optional[str]) -> FundType:
        if not fund_type:
            raise ValidationError("Fund type is required", field="fund_type")
        try:
            return FundType(fund_type.strip().lower())
        except ValueError:
            allowed = ", ".join(f.value for f in FundType)
            raise ValidationError(
                f"Invalid fund type '{fund_type}'. Must be one of: {allowed}",
                field="fund_type",
            )

    def validate_category_id(self, category_id: Optional[str]) -> Optional[str]:
        if category_id is None:
            return None
        if not CATEGORY_ID_PATTERN.match(category_id):
            raise ValidationError(
                f"Invalid category id '{category_id}'. Expected a UUID",
                field="category_id",
            )
        return category_id

    def require_linked_account(
        self,
        container: RecurringContainer,
        artifact_name: str,
    ) -> None:
        if container.linked_account_id is None:
            raise ConfigurationError(
                f"Cannot create {artifact_name} without a linked account",
                container_id=str(container.id),
            )

    def validate(
        self,
        container: RecurringContainer,
        requires_account: bool,
        artifact_name: str = "tracking",
    ) -> FundType:
        """
        Run every check for one container.

        Returns:
            The parsed fund type

        Raises:
            ValidationError: Bad fund type or category id
            ConfigurationError: Missing linked account
        """
        fund_type = self.validate_fund_type(container.fund_type)
        self.validate_category_id(container.category_id)
        if requires_account:
            self.require_linked_account(container, artifact_name)
        return fund_type

"""Trial state, feature permissions and staff limits derived from the Supabase views."""
from dataclasses import dataclass
from typing import Optional

TRIAL_SUBSCRIPTION_STATUSES = {'trial', 'trial_expired'}
ACTIVE_TRIAL_STATUSES = {'active', 'expires_today'}

# Staff allowance per plan when v_user_staff_limits can't be read
PLAN_STAFF_LIMITS = {
    'starter': 10,
    'growth': 50,
    'professional': 200,
}
DEFAULT_STAFF_LIMIT = 10
DEFAULT_PLAN_NAME = 'Starter'


@dataclass(frozen=True)
class TrialStatus:
    error: Optional[str] = None
    is_trial_active: bool = False
    is_expired: bool = False
    days_remaining: int = 0
    access_allowed: bool = False
    subscription_status: Optional[str] = None
    trial_ends_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Optional[dict]) -> 'TrialStatus':
        """
        Interpret a v_trial_status row.

        Access is allowed when the database says so, when the account has an
        active paid subscription, or when a trial is still running.
        """
        row = row or {}
        subscription_status = row.get('subscription_status')
        is_trial_user = subscription_status in TRIAL_SUBSCRIPTION_STATUSES
        trial_status = row.get('trial_status') or 'not_trial'
        is_trial_active = trial_status in ACTIVE_TRIAL_STATUSES
        is_expired = trial_status == 'expired' or subscription_status == 'trial_expired'
        try:
            days_remaining = int(row.get('days_remaining') or 0)
        except (TypeError, ValueError):
            days_remaining = 0
        access_allowed = (row.get('access_allowed') is True
                          or (not is_trial_user and subscription_status == 'active')
                          or (is_trial_user and is_trial_active))
        return cls(
            error=None,
            is_trial_active=is_trial_active,
            is_expired=is_expired,
            days_remaining=max(0, days_remaining),
            access_allowed=access_allowed,
            subscription_status=subscription_status,
            trial_ends_at=row.get('trial_ends_at'),
        )

    @classmethod
    def unauthenticated(cls) -> 'TrialStatus':
        return cls()

    @classmethod
    def failed(cls, message: str) -> 'TrialStatus':
        return cls(error=message, access_allowed=False)


@dataclass(frozen=True)
class FeatureAccess:
    trial_status: TrialStatus

    @property
    def access_allowed(self) -> bool:
        return self.trial_status.access_allowed and not self.trial_status.is_expired

    @property
    def can_create(self) -> bool:
        return self.access_allowed

    @property
    def can_edit(self) -> bool:
        return self.access_allowed

    @property
    def can_delete(self) -> bool:
        return self.access_allowed

    @property
    def can_export(self) -> bool:
        return self.access_allowed

    @property
    def can_assign(self) -> bool:
        return self.access_allowed

    @property
    def show_upgrade_prompt(self) -> bool:
        return self.trial_status.is_expired or not self.access_allowed

    @property
    def has_error(self) -> bool:
        return bool(self.trial_status.error)

    def allows(self, action: str) -> bool:
        """Look up a permission by name: 'create', 'edit', 'delete', 'export', 'assign'."""
        return bool(getattr(self, f'can_{action}', False))

    def button_text(self, default_text: str, upgrade_text: Optional[str] = None) -> str:
        if self.access_allowed:
            return default_text
        return upgrade_text or f'Upgrade to {default_text}'

    def button_class(self, default_class: str,
                     disabled_class: str = 'bg-gray-500 cursor-not-allowed') -> str:
        return default_class if self.access_allowed else disabled_class


@dataclass(frozen=True)
class StaffLimits:
    current_staff_count: int = 0
    staff_limit: int = DEFAULT_STAFF_LIMIT
    plan_name: str = DEFAULT_PLAN_NAME
    unlimited: bool = False
    near_limit: bool = False
    at_limit: bool = False
    can_add_staff: bool = True
    error: Optional[str] = None

    @classmethod
    def from_row(cls, row: Optional[dict]) -> 'StaffLimits':
        row = row or {}
        return cls(
            current_staff_count=row.get('current_staff_count') or 0,
            staff_limit=row.get('staff_limit') or DEFAULT_STAFF_LIMIT,
            plan_name=row.get('plan_name') or DEFAULT_PLAN_NAME,
            unlimited=bool(row.get('unlimited')),
            near_limit=bool(row.get('near_limit')),
            at_limit=bool(row.get('at_limit')),
            can_add_staff=bool(row.get('can_add_staff')),
        )

    @classmethod
    def for_plan(cls, plan: Optional[str], current_staff_count: int,
                 error: Optional[str] = None) -> 'StaffLimits':
        key = (plan or 'starter').strip().lower()
        limit = PLAN_STAFF_LIMITS.get(key, DEFAULT_STAFF_LIMIT)
        return cls(
            current_staff_count=current_staff_count,
            staff_limit=limit,
            plan_name=key.capitalize(),
            at_limit=current_staff_count >= limit,
            can_add_staff=current_staff_count < limit,
            error=error,
        )

    def remaining(self) -> Optional[int]:
        if self.unlimited:
            return None
        return max(0, self.staff_limit - self.current_staff_count)


def fetch_trial_status(client, user_id) -> TrialStatus:
    """Read the account's row from v_trial_status. Failures deny access rather than raise."""
    if not user_id:
        return TrialStatus.unauthenticated()
    try:
        res = (client.table('v_trial_status')
               .select('*')
               .eq('user_id', user_id)
               .limit(1)
               .execute())
        rows = res.data or []
        return TrialStatus.from_row(rows[0] if rows else {})
    except Exception as e:
        print(f"Error fetching trial status: {e}")
        return TrialStatus.failed('Failed to load trial status')


def fetch_staff_limits(client, user_id) -> StaffLimits:
    """Read v_user_staff_limits, falling back to the plan table and a live staff count."""
    try:
        res = (client.table('v_user_staff_limits')
               .select('*')
               .eq('user_id', user_id)
               .limit(1)
               .execute())
        if res.data:
            return StaffLimits.from_row(res.data[0])
    except Exception as e:
        print(f"Warning: Could not read staff limits view: {e}")
    try:
        pres = (client.table('profiles')
                .select('subscription_plan')
                .eq('id', user_id)
                .limit(1)
                .execute())
        plan = pres.data[0].get('subscription_plan') if pres.data else None
        sres = (client.table('staff')
                .select('id', count='exact')
                .eq('user_id', user_id)
                .execute())
        current = sres.count if sres.count is not None else len(sres.data or [])
        return StaffLimits.for_plan(plan, current)
    except Exception as e:
        print(f"Error fetching staff limits: {e}")
        return StaffLimits(error=str(e))

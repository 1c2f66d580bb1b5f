import logging
import sys

from portal.api.client import ApiClient
from portal.auth.session import SessionContext, SessionError
from portal.components.dashboard import build_dashboard
from portal.core import config

logger = logging.getLogger(__name__)


def _print_dashboard(dashboard, out) -> None:
    view = dashboard.render()
    stats = view.stats
    out.write(f'Signed in as {view.user_email}\n')
    out.write(
        f'Total: {stats.total}  Pending: {stats.pending}  Approved: {stats.approved}  '
        f'Rejected: {stats.rejected}  Completed: {stats.completed}\n'
    )
    if view.error:
        out.write(f'Error: {view.error}\n')
        return

    listing = view.appointment_list
    if listing.is_empty:
        out.write(f'{listing.empty_message}\n')
        return
    for card in listing.cards:
        out.write(f'[{card.status_label}] {card.title}: {card.date_label} at {card.time} - {card.purpose}\n')


def main(argv: list[str] | None = None, out=sys.stdout) -> int:
    logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s %(message)s')

    token = (argv[0] if argv else None) or config.ACCESS_TOKEN
    session = SessionContext()
    try:
        session.establish(token)
    except SessionError:
        logger.error('A valid access token is required (set PORTAL_ACCESS_TOKEN).')
        return 1

    dashboard = build_dashboard(ApiClient(session=session), session)
    dashboard.mount()
    _print_dashboard(dashboard, out)
    return 0 if dashboard.feed.error is None else 1


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))

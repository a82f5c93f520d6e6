"""Connectivity, auth and delete-policy checks run after user-facing errors."""

import logging
from typing import Optional

from studydash.config import Settings, settings as default_settings
from studydash.schemas.diagnostics import DiagnosticsReport, EnvironmentCheck, ReadCheck
from studydash.services.errors import StoreError
from studydash.services.notifier import Notifier
from studydash.services.store_client import StoreClient

logger = logging.getLogger(__name__)

# Never matches a real row; used to test the delete policy without side effects
SENTINEL_SLIDE_ID = "00000000-0000-0000-0000-000000000000"


class Diagnostics:
    def __init__(
        self,
        store: StoreClient,
        notifier: Notifier,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.settings = settings or default_settings

    async def run(self) -> DiagnosticsReport:
        """Run every check stage and post one summary notification. Never raises."""
        logger.info("Running store diagnostics...")
        report = DiagnosticsReport()
        try:
            # Session validity first; an auth failure ends the run early
            try:
                session = await self.store.get_session()
                report.has_session = session is not None
            except StoreError as e:
                logger.error(f"Auth session check failed: {e}")
                report.session_error = str(e)
                await self.notifier.notify(
                    "Authentication Error",
                    "There's an issue with your authentication. Try logging out and back in.",
                    variant="destructive",
                )
                return report

            report.connected = await self._check_connection()
            report.authenticated = report.has_session
            report.environment = self._check_environment()
            logger.info(f"Environment check: {report.environment.model_dump()}")
            report.read_check = await self._direct_read()
            report.policy_status = await self._check_delete_policy()
            report.completed = True
        except Exception as e:
            logger.exception(f"Diagnostics error: {e}")
            await self.notifier.notify(
                "Diagnostics Failed",
                "Could not complete diagnostics. Check the server logs for details.",
                variant="destructive",
            )
            return report

        report.hints = self._hints(report)
        await self.notifier.notify(
            "Diagnostics Results",
            self._summary(report),
            variant="default" if report.healthy else "destructive",
        )
        return report

    async def _check_connection(self) -> bool:
        try:
            await self.store.ping()
            return True
        except StoreError as e:
            logger.error(f"Connection check failed: {e}")
            return False

    def _check_environment(self) -> EnvironmentCheck:
        url = self.settings.store_url
        return EnvironmentCheck(
            has_store_url=bool(url),
            has_anon_key=bool(self.settings.store_anon_key),
            url_preview=f"{url[:10]}..." if url else "missing",
        )

    async def _direct_read(self) -> ReadCheck:
        try:
            rows = await self.store.from_("slides").select("id").limit(1).execute()
            return ReadCheck(ok=True, has_data=bool(rows))
        except StoreError as e:
            logger.error(f"Direct read check failed: {e}")
            return ReadCheck(ok=False, error=str(e))

    async def _check_delete_policy(self) -> str:
        try:
            await self.store.from_("slides").eq("id", SENTINEL_SLIDE_ID).delete()
            status = "Success: Delete policy exists"
        except StoreError as e:
            if "permission" in str(e):
                status = "Failed: No permission to delete"
            else:
                logger.error(f"Delete policy check error: {e}")
                status = "Error testing delete policy"
        logger.info(f"Delete policy test: {status}")
        return status

    def _hints(self, report: DiagnosticsReport) -> list[str]:
        hints = []
        if not report.connected:
            hints.append("Try refreshing the page or check your network connection.")
        if not report.authenticated:
            hints.append("Try logging out and back in to refresh your session.")
        if "Failed" in report.policy_status:
            hints.append("The store needs a delete policy for slides. Set DELETE_POLICY to 'owner' or 'any'.")
        return hints

    def _summary(self, report: DiagnosticsReport) -> str:
        lines = [
            f"Connection: {'Connected' if report.connected else 'Failed'}",
            f"Authentication: {'Authenticated' if report.authenticated else 'Not authenticated'}",
            f"Delete policy: {'Configured' if report.policy_ok else 'Not configured'}",
        ]
        return "\n".join(lines + report.hints)

"""
Staff Handler - HR review actions: driver list and approve / reject.
"""
from app.db.models.driver import DriverStatus
from app.domain.services.driver_approval_service import ApprovalAction, DriverApprovalService
from app.domain.services.telegram.base_transport import InlineButton
from app.state_machine.handlers import Actor, ConversationHandler, MessageResponse


class StaffHandler(ConversationHandler):

    async def list_drivers(self) -> MessageResponse:
        drivers = await self.drivers.list_drivers()
        if not drivers:
            return MessageResponse("📋 No drivers found.")

        text = "📋 Driver List\n\n"
        buttons = []
        for index, driver in enumerate(drivers, start=1):
            text += f"{index}. {driver.display_name} ({driver.status_emoji} {DriverStatus(driver.status).value})\n\n"
            buttons.append([
                InlineButton(f"💬 Message {driver.display_name}", f"message_{driver.id}"),
                InlineButton("✅ Approve", f"approve_{driver.id}"),
                InlineButton("❌ Reject", f"reject_{driver.id}"),
            ])
        return MessageResponse(text.rstrip("\n"), inline_keyboard=buttons)

    async def decide(self, actor: Actor, driver_id: int, action: ApprovalAction) -> MessageResponse:
        """
        Approve or reject a driver.

        Shared by the /approve, /reject commands and the inline buttons, so both
        paths leave the same status and send the driver the same notice.
        """
        result = await DriverApprovalService.decide(self.db, driver_id, action)
        if result.success:
            self.logger.info(
                "HR decision recorded",
                extra_data={
                    "driver_id": driver_id,
                    "action": action.value,
                    "hr_user_id": actor.user_id,
                },
            )
            try:
                await DriverApprovalService.notify_after_decision(result.driver, action, self.notifier)
            except Exception:
                self.logger.exception(
                    "Decision notice to driver failed",
                    extra_data={"driver_id": driver_id, "action": action.value},
                )
        return MessageResponse(result.message, callback_text=result.callback_text)

"""Common command handlers."""

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from utility_monitor.bots.tg.handlers.utils import command_args
from utility_monitor.services.monitor import UtilityMonitor

router = Router(name=__name__)

HELP_TEXT = (
    "This bot tracks utility meters and predicts the yearly bill.\n\n"
    "/status [type] - consumption, costs and balance\n"
    "/reading &lt;sensor&gt; &lt;value&gt; - submit a counter reading\n"
    "/close - close a billing year\n"
    "/adjust &lt;type&gt; [meter] &lt;value&gt; [note] - manual correction\n"
    "/history &lt;type&gt; [meter] - archived years\n"
    "Send a CSV file with caption /import &lt;type&gt; [meter] to import past years."
)


@router.message(CommandStart())
@router.message(Command("help"))
async def handle_help(message: Message) -> None:
    """Handler for the /start and /help commands."""
    await message.answer(HELP_TEXT)


@router.message(Command("status"))
async def handle_status(message: Message, monitor: UtilityMonitor) -> None:
    """Shows the current figures of every meter."""
    args = command_args(message.text)
    types = monitor.config.active_types
    if args:
        types = [t for t in types if t.value == args[0].lower()]
    if not types:
        await message.answer("No matching utility is configured.")
        return

    state = monitor.state
    lines = []
    for utility_type in types:
        lines.append(f"<b>{utility_type.value.capitalize()}</b>")
        for meter in monitor.config.meters_for(utility_type):
            base = meter.path
            yearly = await state.get_number(f"{base}.consumption.yearly")
            daily = await state.get_number(f"{base}.consumption.daily")
            total = await state.get_number(f"{base}.costs.totalYearly")
            balance = await state.get_number(f"{base}.costs.balance")
            days = await state.get_number(f"{base}.billing.daysRemaining", None)
            lines.append(
                f"• {meter.display_name}: today {daily} {utility_type.unit}, "
                f"year {yearly} {utility_type.unit}, {total} €, "
                f"balance <b>{balance} €</b>"
                + (f", {int(days)} days left" if days is not None else "")
            )
        if len(monitor.config.meters_for(utility_type)) > 1:
            total_yearly = await state.get_number(
                f"{utility_type.value}.totals.costs.totalYearly"
            )
            lines.append(f"Total: {total_yearly} €")
        lines.append("")
    await message.answer("\n".join(lines))

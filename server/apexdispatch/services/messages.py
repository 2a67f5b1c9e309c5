"""Outbound message texts. All dynamic values are HTML-escaped (Telegram HTML parse mode)."""
from __future__ import annotations

from html import escape
from typing import Any, List

from apexdispatch.models import Order
from apexdispatch.utils import stage_label
from apexdispatch.services.gateway import Action

SEPARATOR = "───────────────"

TAKE_PREFIX = "take_"
REJECT_PREFIX = "reject_"

ALREADY_TAKEN = "❌ Заявка уже кем-то взята"
ORDER_NOT_FOUND = "❌ Заявка не найдена"
TAKEN_ACK = "✅ Вы приняли заявку! Полная информация отправлена в личные сообщения."
TAKEN_ACK_UNREGISTERED = (
    "✅ Вы приняли заявку! Напишите боту /start, чтобы получить полную информацию и напоминания."
)
REJECTED_ACK = "Заявка отклонена"
PHOTO_SAVED = "✅ Фото сохранено!"
ORDER_COMPLETED = "🎉 Заявка завершена! Ожидайте оплату."
NO_ACTIVE_ORDER = "❌ У вас нет активной заявки. Сначала возьмите заявку в канале."
PHOTO_NOT_SAVED = "❌ Не удалось сохранить фото. Попробуйте отправить ещё раз."
WHATSAPP_HELP = (
    "Отправьте «start» для регистрации, «взять CLN-…» чтобы взять заявку, "
    "или фото с подписью: на месте / химия / до / после."
)


def _v(value: Any, fallback: str = "—") -> str:
    if value is None or value == "":
        return fallback
    return escape(str(value))


def offer_actions(order_id: str) -> List[Action]:
    return [
        Action("✅ Взять заявку", f"{TAKE_PREFIX}{order_id}"),
        Action("❌ Отклонить", f"{REJECT_PREFIX}{order_id}"),
    ]


def format_offer(order: Order) -> str:
    c, j, s = order.customer, order.job, order.schedule
    return (
        f"🧹 <b>НОВАЯ ЗАЯВКА #{_v(order.id)}</b>\n"
        f"{SEPARATOR}\n"
        f"📍 <b>Адрес:</b> {_v(c.address)}, {_v(c.unit)}\n"
        f"📏 <b>Площадь:</b> {_v(j.area)} м²\n"
        f"🧼 <b>Тип уборки:</b> {_v(j.cleaning_type)}\n"
        f"💰 <b>Стоимость:</b> {_v(j.total)} руб\n"
        f"⏰ <b>Дата:</b> {_v(s.date)} {_v(s.time)}\n"
        f"👤 <b>Клиент:</b> {_v(c.name)}\n"
        f"\n{SEPARATOR}\n"
        f"🎯 <b>Для принятия заявки нажмите кнопку ниже</b>\n"
        f"⚠️ <i>Будьте готовы предоставить фото отчет</i>"
    )


def format_full_info(order: Order) -> str:
    c, j, s = order.customer, order.job, order.schedule
    stages = "\n".join(f"   • {stage_label(stage)}" for stage in ("on_site", "chemistry", "before", "after"))
    return (
        f"🔐 <b>ПОЛНАЯ ИНФОРМАЦИЯ ПО ЗАЯВКЕ</b>\n"
        f"{SEPARATOR}\n"
        f"📋 <b>Номер заявки:</b> {_v(order.id)}\n"
        f"📍 <b>Полный адрес:</b> {_v(c.address)}, {_v(c.unit)}\n"
        f"📞 <b>Телефон клиента:</b> <code>{_v(c.phone)}</code>\n"
        f"👤 <b>Имя клиента:</b> {_v(c.name)}\n"
        f"⏰ <b>Дата и время:</b> {_v(s.date)} {_v(s.time)}\n"
        f"\n📏 <b>Детали уборки:</b>\n"
        f"• Площадь: {_v(j.area)} м²\n"
        f"• Тип: {_v(j.cleaning_type)}\n"
        f"• Сложность: уровень {_v(j.difficulty)}\n"
        f"• Животные: {_v(j.pets)}\n"
        f"\n💰 <b>Финансы:</b>\n"
        f"• Сумма заказа: {_v(j.total)} руб\n"
        f"• Зарплата мастерам: {_v(j.pay)} руб\n"
        f"\n🧰 <b>Оборудование:</b> {_v(j.equipment)}\n"
        f"🧴 <b>Химия:</b> {_v(j.chemistry)}\n"
        f"\n📝 <b>Описание работ:</b>\n{_v(j.description)}\n"
        f"\n{SEPARATOR}\n"
        f"<b>ИНСТРУКЦИЯ:</b>\n"
        f"1. Позвоните клиенту для подтверждения\n"
        f"2. Приезжайте вовремя\n"
        f"3. Присылайте фото с подписью (на месте / химия / до / после):\n"
        f"{stages}\n"
        f"\n⏰ <i>Напоминания придут за 24 часа и за 2 часа до уборки</i>"
    )


def format_greeting(name: str) -> str:
    return (
        f"👋 Привет, {_v(name, 'мастер')}!\n\n"
        f"Я бот для принятия заявок на уборку.\n"
        f"Когда в канале появится новая заявка, ты сможешь нажать кнопку \"Взять заявку\".\n\n"
        f"После принятия заявки я пришлю тебе полную информацию."
    )


def format_reminder_24h(order: Order) -> str:
    return (
        f"⏰ Напоминание: завтра в {_v(order.schedule.time)} у вас заявка {_v(order.id)}\n"
        f"Адрес: {_v(order.customer.address)}"
    )


def format_reminder_2h(order: Order) -> str:
    return (
        f"⏰ Через 2 часа у вас заявка {_v(order.id)}\n"
        f"Подготовьтесь к выезду!\n"
        f"Телефон клиента: {_v(order.customer.phone)}"
    )


def format_completion_notice(order: Order) -> str:
    worker = order.assigned_worker
    return (
        f"📢 Работа завершена!\n"
        f"Заявка: {_v(order.id)}\n"
        f"Мастер: {_v(worker.name if worker else None)}\n"
        f"Клиент: {_v(order.customer.name)}"
    )

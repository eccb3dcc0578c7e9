"""Cart item management: command and handler."""

from protean import handle
from protean.fields import Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.cart.cart import ShoppingCart
from ordering.domain import ordering

_CUSTOM_FIELDS = ("length", "width", "height", "frame_material", "tabletop_material", "labor_days")


@ordering.command(part_of="ShoppingCart")
class AddToCart:
    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    length = Float()
    width = Float()
    height = Float()
    frame_material = String(max_length=100)
    tabletop_material = String(max_length=100)
    labor_days = Integer()


@ordering.command_handler(part_of=ShoppingCart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.find_for_customer(command.customer_id) or ShoppingCart.create(command.customer_id)

        customization = {f: getattr(command, f) for f in _CUSTOM_FIELDS if getattr(command, f) is not None}
        cart.add_item(item_id=command.item_id, quantity=command.quantity, customization=customization or None)
        repo.add(cart)
        return str(cart.id)

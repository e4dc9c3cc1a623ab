from farmstand.models.farm import Farm
from farmstand.models.user import User
from farmstand.models.product import Product, ProductBatch, StoreProduct
from farmstand.models.expense import ExpenseRecord
from farmstand.models.cart import CartLine
from farmstand.models.order import Order, OrderItem
from farmstand.models.sales import Sale

"""In-memory catalog and coupon book for development and testing.

Both adapters are seeded at runtime by tests or development setup code.
The catalog keeps a log of lookups.
"""

from dataclasses import replace

from ordering.catalog.port import Catalog, Coupon, CouponBook, ProductInfo, WarrantyPackage


class InMemoryCatalog(Catalog):
    def __init__(self) -> None:
        self.products: dict[str, ProductInfo] = {}
        self.warranty_packages: dict[str, WarrantyPackage] = {}
        self.calls: list[dict] = []

    def add_product(self, product: ProductInfo) -> None:
        self.products[str(product.product_id)] = product

    def add_warranty_package(self, package: WarrantyPackage) -> None:
        self.warranty_packages[str(package.package_id)] = package

    def get_product(self, product_id: str) -> ProductInfo | None:
        self.calls.append({"method": "get_product", "product_id": str(product_id)})
        return self.products.get(str(product_id))

    def get_warranty_package(self, package_id: str) -> WarrantyPackage | None:
        self.calls.append({"method": "get_warranty_package", "package_id": str(package_id)})
        return self.warranty_packages.get(str(package_id))


class InMemoryCouponBook(CouponBook):
    def __init__(self) -> None:
        self.coupons: dict[str, Coupon] = {}

    def add(self, coupon: Coupon) -> None:
        self.coupons[coupon.code.upper()] = coupon

    def find(self, code: str) -> Coupon | None:
        if not code:
            return None
        return self.coupons.get(code.strip().upper())

    def record_redemption(self, code: str) -> None:
        coupon = self.find(code)
        if coupon is not None:
            self.coupons[coupon.code.upper()] = replace(coupon, used_count=coupon.used_count + 1)

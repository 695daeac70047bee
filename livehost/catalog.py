"""Default showcase catalog used until products are replaced at runtime"""

from typing import List

from .models import ProductData, ProductSpec


def default_products() -> List[ProductData]:
    return [
        ProductData(
            id="1",
            etalase_no="1",
            name="Daster Premium Rayon",
            category="Fashion",
            price="Tujuh puluh lima ribu",
            stock=12,
            description="Bahan sangat dingin di kulit, tidak menerawang. Cocok untuk kancing depan. Motif sultan viral.",
            specifications=[
                ProductSpec(label="Bahan", value="Katun Rayon Grade A"),
                ProductSpec(label="Ukuran", value="LD 120cm (Fit to XL)"),
                ProductSpec(label="Varian Warna", value="Navy, Maroon, Emerald"),
            ],
        ),
        ProductData(
            id="2",
            etalase_no="2",
            name="Serum Brightening Vitamin C",
            category="Beauty",
            price="Sembilan puluh sembilan ribu",
            stock=25,
            description="Mencerahkan kulit kusam dalam 7 hari. Cepat meresap dan tidak lengket. Aman untuk bumil busui.",
            specifications=[
                ProductSpec(label="Tipe Kulit", value="Semua Jenis Kulit"),
                ProductSpec(label="Kandungan", value="Pure Vit C 15%"),
                ProductSpec(label="Exp Date", value="Desember 2026"),
            ],
        ),
        ProductData(
            id="3",
            etalase_no="5",
            name="Top Up MLBB 1000 Diamonds",
            category="Digital",
            price="Dua ratus lima puluh ribu",
            stock=99,
            description="Proses cepat 1-5 menit via ID & Server. Legal 100% aman anti-ban. Bonus fragment acak.",
            specifications=[
                ProductSpec(label="Platform", value="Mobile Legends"),
                ProductSpec(label="Estimasi", value="Instan 5 Menit"),
                ProductSpec(label="Region", value="Global / Indonesia"),
            ],
        ),
    ]

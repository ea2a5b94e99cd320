"""Saved Athena queries that create the tables used in the basics lab."""

from dataclasses import dataclass
from typing import Tuple

NAMED_QUERY_DATABASE = "default"

CSV_SERDE = """ROW FORMAT DELIMITED
  FIELDS TERMINATED BY ','
STORED AS INPUTFORMAT
  'org.apache.hadoop.mapred.TextInputFormat'
OUTPUTFORMAT
  'org.apache.hadoop.hive.ql.io.HiveIgnoreKeyTextOutputFormat'"""

CSV_PROPERTIES = """TBLPROPERTIES (
  'areColumnsQuoted'='false',
  'classification'='csv',
  'columnsOrdered'='true',
  'compressionType'='none',
  'delimiter'=',',
  'skip.header.line.count'='1',
  'typeOfData'='file')"""

PARQUET_SERDE = "STORED AS PARQUET"

PARQUET_PROPERTIES = """TBLPROPERTIES (
  'classification'='parquet',
  'compressionType'='none',
  'typeOfData'='file')"""

CUSTOMER_COLUMNS = (
    ("card_id", "bigint"),
    ("customer_id", "bigint"),
    ("lastname", "string"),
    ("firstname", "string"),
    ("email", "string"),
    ("address", "string"),
    ("birthday", "string"),
    ("country", "string"),
)

SALES_COLUMNS = (
    ("invoiceno", "string"),
    ("stockcode", "string"),
    ("description", "string"),
    ("quantity", "bigint"),
    ("invoicedate", "string"),
    ("unitprice", "double"),
    ("customerid", "bigint"),
    ("country", "string"),
)


@dataclass(frozen=True)
class TableQuery:
    """``CREATE EXTERNAL TABLE`` statement saved as an Athena named query."""

    construct_id: str
    table_name: str
    columns: Tuple[Tuple[str, str], ...]
    data_format: str
    location_prefix: str

    @property
    def name(self) -> str:
        return f"Athena_create_{self.table_name}"

    @property
    def description(self) -> str:
        return f"Create table {self.table_name}"

    def location(self, bucket_name: str) -> str:
        return f"s3://{bucket_name}/{self.location_prefix}"

    def query_string(self, bucket_name: str) -> str:
        if self.data_format == "csv":
            serde, properties = CSV_SERDE, CSV_PROPERTIES
        elif self.data_format == "parquet":
            serde, properties = PARQUET_SERDE, PARQUET_PROPERTIES
        else:
            raise ValueError(f"Unsupported table format: {self.data_format}")

        columns = ",\n".join(f"  {name} {data_type}" for name, data_type in self.columns)
        return "\n".join(
            [
                f"CREATE EXTERNAL TABLE {self.table_name} (",
                f"{columns})",
                serde,
                "LOCATION",
                f"  '{self.location(bucket_name)}'",
                f"{properties};",
            ]
        )


BASICS_QUERIES = (
    TableQuery(
        construct_id="basicscustomercsv",
        table_name="customers_csv",
        columns=CUSTOMER_COLUMNS,
        data_format="csv",
        location_prefix="basics/csv/customers/",
    ),
    TableQuery(
        construct_id="basicssalescsv",
        table_name="sales_csv",
        columns=SALES_COLUMNS,
        data_format="csv",
        location_prefix="basics/csv/sales/",
    ),
    TableQuery(
        construct_id="basicscustomerparquet",
        table_name="customers_parquet",
        columns=CUSTOMER_COLUMNS,
        data_format="parquet",
        location_prefix="basics/parquet/customers/",
    ),
    TableQuery(
        construct_id="basicssalesparquet",
        table_name="sales_parquet",
        columns=SALES_COLUMNS,
        data_format="parquet",
        location_prefix="basics/parquet/sales/",
    ),
)

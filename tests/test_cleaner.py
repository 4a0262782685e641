from __future__ import annotations

from datetime import datetime

import polars as pl
from polars.testing import assert_frame_equal

from tests.conftest import make_frame, make_trip, varied_trips
from tip_pipeline.cleaner import TripCleaner, iqr_trim


def _scenario_frame() -> pl.DataFrame:
    valid = varied_trips(6)
    negative_fare = [make_trip(fare_amount=-5.0), make_trip(fare_amount=-0.5)]
    no_passengers = [make_trip(passenger_count=0), make_trip(passenger_count=0)]
    rows = negative_fare[:1] + valid[:3] + no_passengers + valid[3:] + negative_fare[1:]
    return make_frame(rows).with_row_index("row_id")


def test_filter_keeps_only_valid_rows(config):
    df = _scenario_frame()
    out = TripCleaner(config).filter_records(df)
    assert out["row_id"].to_list() == [1, 2, 3, 6, 7, 8]


def test_clean_returns_the_six_valid_rows(config):
    df = _scenario_frame()
    out = TripCleaner(config).clean(df)
    assert out["row_id"].to_list() == [1, 2, 3, 6, 7, 8]


def test_clean_output_is_subset_of_input(config):
    rows = varied_trips(30) + [
        make_trip(trip_distance=0.5),
        make_trip(minutes=3),
        make_trip(passenger_count=7),
        make_trip(fare_amount=500.0),
    ]
    df = make_frame(rows).with_row_index("row_id")
    out = TripCleaner(config).clean(df)

    assert 0 < out.height < df.height
    expected = df.filter(pl.col("row_id").is_in(out["row_id"].to_list()))
    assert_frame_equal(out.select(df.columns), expected)


def test_passenger_count_bounds_are_exclusive(config):
    df = make_frame([make_trip(passenger_count=n) for n in range(0, 8)])
    out = TripCleaner(config).filter_records(df)
    assert out["passenger_count"].to_list() == [1, 2, 3, 4, 5]


def test_filter_requires_configured_year_at_both_ends(config):
    df = make_frame([
        make_trip(pickup=datetime(2016, 12, 31, 23, 50)),
        make_trip(pickup=datetime(2017, 12, 31, 23, 50)),
        make_trip(pickup=datetime(2017, 6, 1, 12, 0)),
    ])
    out = TripCleaner(config).filter_records(df)
    assert out.height == 1
    assert out["tpep_pickup_datetime"][0] == datetime(2017, 6, 1, 12, 0)


def test_filter_rejects_any_negative_fare_component(config):
    components = ["extra", "mta_tax", "tip_amount", "tolls_amount", "improvement_surcharge"]
    rows = [make_trip(**{col: -0.5}) for col in components] + [make_trip()]
    out = TripCleaner(config).filter_records(make_frame(rows))
    assert out.height == 1


def test_payment_type_restriction(config):
    config.payment_types = [1]
    df = make_frame([make_trip(payment_type=1), make_trip(payment_type=2)])
    out = TripCleaner(config).filter_records(df)
    assert out["payment_type"].to_list() == [1]


def test_derived_speed_and_thresholds(config):
    rows = varied_trips(20) + [
        make_trip(trip_distance=1.0),
        make_trip(trip_distance=0.2),
        make_trip(minutes=5),
        make_trip(minutes=2),
    ]
    out = TripCleaner(config).derive_features(make_frame(rows))

    assert out.height == 20
    assert (out["trip_time"] > 5).all()
    assert (out["trip_distance"] > 1).all()
    assert (out["speed"] == out["trip_distance"] / out["trip_time"]).all()


def test_calendar_features(config):
    df = make_frame([make_trip(pickup=datetime(2017, 3, 5, 23, 50), minutes=20)])
    out = TripCleaner(config).derive_features(df)
    row = out.row(0, named=True)
    # 2017-03-05 is a Sunday
    assert (row["pickup_hour"], row["pickup_weekday"], row["pickup_month"]) == (23, 7, 3)
    assert (row["dropoff_hour"], row["dropoff_weekday"], row["dropoff_month"]) == (0, 1, 3)
    assert row["trip_time"] == 20.0


def test_iqr_trim_removes_extreme_value():
    df = pl.DataFrame({"fare_amount": [float(v) for v in range(1, 11)] + [100.0]})
    out = iqr_trim(df, "fare_amount")
    assert out["fare_amount"].to_list() == [float(v) for v in range(1, 11)]


def test_iqr_trim_is_idempotent():
    df = pl.DataFrame({"fare_amount": [float(v) for v in range(1, 11)] + [100.0]})
    once = iqr_trim(df, "fare_amount")
    twice = iqr_trim(once, "fare_amount")
    assert_frame_equal(once, twice)


def test_iqr_trim_drops_everything_on_constant_column():
    df = pl.DataFrame({"tolls_amount": [0.0] * 5})
    assert iqr_trim(df, "tolls_amount").height == 0


def test_trim_outliers_applies_tolls_cutoff(config):
    rows = varied_trips(20)
    rows[3]["tolls_amount"] = 25.0
    rows[4]["tolls_amount"] = 5.76
    df = make_frame(rows)
    out = TripCleaner(config).trim_outliers(df)
    assert out.height == 19
    assert out["tolls_amount"].max() == 5.76


def test_to_ml_frame_drops_encoded_columns(config):
    cleaner = TripCleaner(config)
    out = cleaner.to_ml_frame(cleaner.clean(make_frame(varied_trips(20))))
    for col in config.drop_columns:
        assert col not in out.columns
    assert "speed" in out.columns
    assert config.target_column in out.columns


def test_clean_returns_empty_frame_when_nothing_passes(config):
    df = make_frame([make_trip(fare_amount=-1.0), make_trip(passenger_count=0)])
    out = TripCleaner(config).clean(df)
    assert out.height == 0
    assert "speed" in out.columns


def test_iqr_trim_leaves_all_null_column_alone():
    df = pl.DataFrame({"tip_amount": [None, None]}, schema={"tip_amount": pl.Float64})
    assert_frame_equal(iqr_trim(df, "tip_amount"), df)


def _order_sensitive_frame() -> pl.DataFrame:
    rows = [make_trip(fare_amount=10.0 + i, tip_amount=1.0 + i) for i in range(9)]
    # borderline tip, kept only while the fare outlier still raises tip quartiles
    rows.append(make_trip(fare_amount=19.0, tip_amount=15.0))
    rows.append(make_trip(fare_amount=1000.0, tip_amount=9.5))
    return make_frame(rows)


def test_iqr_trims_use_quartiles_of_previous_output(config):
    df = _order_sensitive_frame()

    config.iqr_columns = ["fare_amount", "tip_amount"]
    fare_first = TripCleaner(config).trim_outliers(df)
    config.iqr_columns = ["tip_amount", "fare_amount"]
    tip_first = TripCleaner(config).trim_outliers(df)

    assert fare_first["tip_amount"].to_list() == [1.0 + i for i in range(9)]
    assert tip_first["tip_amount"].to_list() == [1.0 + i for i in range(9)] + [15.0]
    assert fare_first["fare_amount"].max() < 1000.0
    assert tip_first["fare_amount"].max() < 1000.0

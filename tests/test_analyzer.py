from receipt_ledger.analyzer import parse_amount, parse_analysis_text


def test_parse_amount():
    assert parse_amount('1,200円') == 1200
    assert parse_amount('¥980') == 980
    assert parse_amount('不明') is None


def test_parse_analysis_text_reads_labelled_lines():
    text = "\n".join([
        "日付: 2025-08-01",
        "金額：1,200円",
        "支払い方法: クレジットカード",
        "詳細: パン、牛乳",
        "店舗: ベーカリー 12:30",
    ])

    result = parse_analysis_text(text)

    assert result.is_receipt
    assert result.date == '2025-08-01'
    assert result.total_amount == 1200
    assert result.payment_method == 'クレジットカード'
    assert result.items == 'パン、牛乳'
    assert result.store_name == 'ベーカリー 12:30'


def test_unknown_values_make_result_unusable():
    result = parse_analysis_text("日付: 不明\n金額: 500\nsome noise line")

    assert result.date is None
    assert result.total_amount == 500
    assert not result.is_receipt

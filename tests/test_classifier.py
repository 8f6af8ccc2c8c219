from receipt_ledger import classifier
from receipt_ledger.models import AnalysisResult, MasterEntry

CATEGORIES = [MasterEntry(1, '食費'), MasterEntry(2, '交通費'), MasterEntry(3, '日用品')]


def test_find_category_by_keyword():
    assert classifier.find_category_by_keyword(CATEGORIES, '交通費', 1) == 2
    assert classifier.find_category_by_keyword(CATEGORIES, '日用', 1) == 3
    assert classifier.find_category_by_keyword(CATEGORIES, 'ご飯', 9) == 1
    assert classifier.find_category_by_keyword(CATEGORIES, 'gadget', 9) == 9


def test_find_group_and_user():
    groups = [MasterEntry(1, '沖縄旅行')]
    users = [MasterEntry(0, '自分'), MasterEntry(1, '花子')]

    assert classifier.find_group_by_keyword(groups, '旅行') == 1
    assert classifier.find_group_by_keyword(groups, '出張') is None
    assert classifier.find_user_by_name(users, '花子さん', 0) == 1
    assert classifier.find_user_by_name(users, '自分', 0) == 0
    assert classifier.find_user_by_name(users, '', 0) == 0


def test_enhance_payment_method():
    payment_types = [MasterEntry(1, '現金', type_id='t1'), MasterEntry(2, '楽天カード', type_id='t2')]
    type_list = [('t1', '現金'), ('t2', 'カード')]

    assert classifier.enhance_payment_method('カード', payment_types, type_list) == '楽天カード'
    assert classifier.enhance_payment_method('VISA credit', payment_types, type_list) == 'VISA credit'
    assert classifier.enhance_payment_method('Suica', payment_types, type_list) == 'Suica'


def test_fallback_detail():
    assert classifier.fallback_detail(AnalysisResult(items='パン', store_name='ベーカリー')) == 'パン - ベーカリー'
    assert classifier.fallback_detail(AnalysisResult(store_name='ベーカリー')) == 'ベーカリー'
    assert classifier.fallback_detail(AnalysisResult()) == 'レシート解析結果'

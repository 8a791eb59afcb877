import pytest

from errors import NotFound, ValidationError


@pytest.fixture
def ngos(identity, directory):
    def add(name, email, address, areas, status):
        ngo = identity.register(name, email, "pw12345", "ngo", {"address": address, "serviceAreas": areas})
        if status != "pending":
            directory.set_verification(ngo.id, status)
        return ngo.id

    return {
        "food": add("Food For All", "info@foodforall.org", "789 Charity Ave, Helptown", ["Downtown", "Eastside"], "verified"),
        "heroes": add("Hunger Heroes", "contact@hungerheroes.org", "101 Hope St, Goodcity", ["Westside"], "verified"),
        "fresh": add("Fresh Start Initiative", "help@freshstart.org", "202 Blessing Rd", ["University District"], "verified"),
        "new": add("Hopeful Kitchen", "hello@hopeful.org", "1 Hope Lane", ["Downtown"], "pending"),
        "bad": add("Hope Scam", "scam@example.org", "2 Hope Rd", [], "rejected"),
    }


def ids(items):
    return {n.id for n in items}


def test_list_verified_only(directory, ngos):
    assert ids(directory.list_verified()) == {ngos["food"], ngos["heroes"], ngos["fresh"]}


@pytest.mark.parametrize("query", ["", "   "])
def test_blank_search_is_list_verified(directory, ngos, query):
    assert ids(directory.search(query)) == ids(directory.list_verified())


@pytest.mark.parametrize("query", ["hope", "HOPE", "Hope"])
def test_search_matches_address_case_insensitively(directory, ngos, query):
    assert ids(directory.search(query)) == {ngos["heroes"]}


def test_search_matches_name_and_service_area(directory, ngos):
    assert ids(directory.search("fresh")) == {ngos["fresh"]}
    assert ids(directory.search("downtown")) == {ngos["food"]}
    assert ids(directory.search("district")) == {ngos["fresh"]}
    assert directory.search("nowhere") == []


def test_registered_ngo_starts_pending(directory, ngos):
    assert directory.get(ngos["new"]).verificationStatus == "pending"
    assert ids(directory.list_by_verification("pending")) == {ngos["new"]}


def test_set_verification(directory, ngos):
    ngo = directory.set_verification(ngos["new"], "verified")
    assert ngo.verificationStatus == "verified"
    assert ngos["new"] in ids(directory.search("hope"))


def test_set_verification_validates(directory, ngos):
    with pytest.raises(ValidationError):
        directory.set_verification(ngos["new"], "approved")
    with pytest.raises(NotFound):
        directory.set_verification("64b7f0c2a1b2c3d4e5f60718", "verified")


def test_get_donor_is_not_an_ngo(identity, directory):
    donor = identity.register("John", "john@example.com", "pw12345", "donor")
    with pytest.raises(NotFound):
        directory.get(donor.id)


def test_search_only_folds_case(directory, ngos):
    assert directory.search("Hope St ") == []
    assert ids(directory.search("HOPE ST,")) == {ngos["heroes"]}
